"""Public result models returned by the test harness."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class WitnessTestResult(BaseModel):
    """Outcome of checking a witness against expected signals."""
    passed: bool
    outputs: Dict[str, str]  # flattened signal name -> decimal value
    expected: Optional[Dict[str, str]] = None  # flattened, reduced
    errors: List[str] = Field(default_factory=list)  # one message per mismatching signal

    @property
    def error(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None


class ProofTestResult(BaseModel):
    """Outcome of proving and verifying one input set."""
    valid: bool
    protocol: str
    public_signals: Dict[str, str] = Field(default_factory=dict)  # ordered as the verifier reads them
    error: Optional[str] = None
