from typing import List, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ..config import DEFAULT_SESSION_TITLE, MAX_FILE_SIZE
from .session import SessionPolicy


class SessionCreateRequest(BaseModel):
    """
    Body of a session creation request. Every field is optional.

    Attributes:
        title (str): Display title for the upload form
        allowed_types (List[str]): Allowed extensions, given as a list or a comma-separated string
        max_size (int): Maximum upload size in bytes
        smart_cut (bool): Cut chunks at safe delimiters
        clean_output (bool): Strip characters outside the clean-output whitelist
    """

    title: str = DEFAULT_SESSION_TITLE
    allowed_types: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allowedTypes", "allowedExtensions", "allowed_types"),
    )
    max_size: int = Field(
        default=MAX_FILE_SIZE,
        gt=0,
        le=MAX_FILE_SIZE,
        validation_alias=AliasChoices("maxSize", "maxSizeBytes", "max_size"),
    )
    smart_cut: bool = Field(default=True, validation_alias=AliasChoices("smartCut", "smart_cut"))
    clean_output: bool = Field(
        default=False,
        validation_alias=AliasChoices("cleanOutput", "sanitizeOutput", "clean_output"),
    )

    @field_validator("title", mode="before")
    @classmethod
    def default_blank_title(cls, value):
        return value or DEFAULT_SESSION_TITLE

    @field_validator("allowed_types", mode="before")
    @classmethod
    def split_allowed_types(cls, value: Union[str, List[str], None]):
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    def to_policy(self) -> SessionPolicy:
        return SessionPolicy(
            title=self.title,
            allowed_extensions=frozenset(self.allowed_types),
            max_size_bytes=self.max_size,
            smart_cut=self.smart_cut,
            sanitize_output=self.clean_output,
        )
