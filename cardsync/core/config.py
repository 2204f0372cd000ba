from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    anki_connect_url: str = Field("http://127.0.0.1:8765", description="AnkiConnect endpoint")
    anki_connect_version: int = Field(6, description="AnkiConnect protocol version")
    request_timeout: float = Field(30.0, description="Timeout in seconds for a single AnkiConnect request")
    max_retries: int = Field(3, description="Maximum number of attempts for transport-level failures")
    main_deck: str = Field("Default", description="Deck under which block decks are created")
    vault_name: str = Field("Obsidian", description="Vault name used in obsidian:// deep links")
    vault_path: str = Field(".", description="Root directory of the note vault")
    basic_model: str = Field("Basic", description="Note type for question/answer cards")
    basic_front_field: str = Field("Front", description="Question field of the basic note type")
    basic_back_field: str = Field("Back", description="Answer field of the basic note type")
    typed_model: str = Field("Basic (type in the answer)", description="Note type for typed-recall cards")
    typed_front_field: str = Field("Front", description="Question field of the typed-recall note type")
    typed_back_field: str = Field("Back", description="Answer field of the typed-recall note type")
    cloze_model: str = Field("Cloze", description="Note type for fill-in-the-blank cards")
    cloze_text_field: str = Field("Text", description="Text field of the cloze note type")
    note_tags: List[str] = Field(["anki-block-sync"], description="Tags attached to every created note")
    log_level: str = Field("INFO", description="Root log level")
    log_json: bool = Field(True, description="Emit JSON log lines instead of plain text")

    @field_validator(
        'basic_model',
        'basic_front_field',
        'basic_back_field',
        'typed_model',
        'typed_front_field',
        'typed_back_field',
        'cloze_model',
        'cloze_text_field',
    )
    def validate_names(cls, v: str) -> str:
        """
        Note type and field names must not be blank.
        """
        if not v or not v.strip():
            raise ValueError("Note type and field names cannot be empty.")
        return v.strip()

    @field_validator('max_retries')
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retries must be at least 1.")
        return v

    class Config:
        # Automatically load the settings from environment variables
        env_prefix = "CARDSYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create a settings instance
settings = Settings()

# Export settings instance
__all__ = ['settings', 'Settings']
