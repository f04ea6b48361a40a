from __future__ import annotations

from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


YES_TOKENS = frozenset({"yes", "oui", "y", "true"})
NO_TOKENS = frozenset({"no", "non", "n", "false"})
UNCATEGORIZED_LABELS = frozenset({"other", "uncategorized", "autre"})


def normalize_verdict(token: object) -> Optional[bool]:
    """Map an oracle pass/fail token to True/False; None when unrecognized."""
    if isinstance(token, bool):
        return token
    if token is None:
        return None
    text = str(token).strip().strip(".!").lower()
    if text in YES_TOKENS:
        return True
    if text in NO_TOKENS:
        return False
    return None


def is_uncategorized(category: Optional[str]) -> bool:
    return not category or category.strip().lower() in UNCATEGORIZED_LABELS


class Gate1Verdict(BaseModel):
    """Oracle output for gate 1: active in-house recruiting."""

    verdict: Optional[Union[bool, str]] = Field(default=None, validation_alias=AliasChoices("verdict", "recrute_poste"))
    roles: str = Field(default="", validation_alias=AliasChoices("roles", "postes"))

    model_config = ConfigDict(extra="ignore")

    @field_validator("roles", mode="before")
    @classmethod
    def _roles_as_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, list):
            return ", ".join(str(v).strip() for v in value if v)
        return str(value)


class Gate2Verdict(BaseModel):
    """Oracle output for gate 2: language / location eligibility."""

    verdict: Optional[Union[bool, str]] = Field(default=None, validation_alias=AliasChoices("verdict", "reponse"))
    language: Optional[str] = Field(default=None, validation_alias=AliasChoices("language", "langue"))
    location: Optional[str] = Field(default=None, validation_alias=AliasChoices("location", "localisation_detectee"))
    reason: Optional[str] = Field(default=None, validation_alias=AliasChoices("reason", "raison"))

    model_config = ConfigDict(extra="ignore")


class Gate3Verdict(BaseModel):
    """Oracle output for gate 3: dominant category + normalized role titles."""

    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "categorie"))
    selected_roles: List[str] = Field(default_factory=list, validation_alias=AliasChoices("selected_roles", "postes_selectionnes"))
    justification: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("selected_roles", mode="before")
    @classmethod
    def _roles_as_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(v).strip() for v in value if v]
