"""
manzai/models/script.py

Ephemeral models for one generation request.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from manzai.features.script.length_band import LengthBand
from manzai.features.techniques.catalog import TechniqueSelection


class GenerationRequest(BaseModel):
    """
    Sanitized generation input.

    characters holds 1-4 names; the second one is the tsukkomi (reactive
    speaker) who delivers the closing line.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    theme: str
    genre: str
    characters: List[str]
    target_length: int
    techniques: TechniqueSelection = Field(default_factory=TechniqueSelection)
    user_id: Optional[str] = None

    @property
    def tsukkomi_name(self) -> str:
        return self.characters[1] if len(self.characters) > 1 else "B"


class PromptPlan(BaseModel):
    """Instruction text plus the metadata reported back to the client."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    prompt: str
    techniques_for_meta: List[str]
    structure_meta: List[str]
    required_techniques: List[str]
    band: LengthBand
    characters: List[str]
    tsukkomi_name: str


class ScriptDraft(BaseModel):
    """Title and body as they move through the generation pipeline."""
    title: str = ""
    body: str = ""
    model_calls: int = 0
    stages: List[str] = Field(default_factory=list)

    @property
    def length(self) -> int:
        return len(self.body)

    def is_empty(self) -> bool:
        return not self.body.strip()
