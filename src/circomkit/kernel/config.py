"""Pydantic models for circomkit settings and circuit identities with strict validation."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from circomkit.errors import InvalidConfig
from circomkit.kernel.field import Prime

HERMEZ_PTAU_BASE = "https://storage.googleapis.com/zkevm/ptau"


class Protocol(str, Enum):
    """Supported proving protocols."""

    GROTH16 = "groth16"
    PLONK = "plonk"
    FFLONK = "fflonk"


def _revalidate(model: BaseModel, **changes: Any) -> Any:
    """Return a validated copy of ``model`` with ``changes`` applied."""
    data = model.model_dump()
    data.update(changes)
    try:
        return type(model).model_validate(data)
    except ValidationError as e:
        raise InvalidConfig(str(e)) from e


class CircomkitConfig(BaseModel):
    """Process-wide settings, loaded once and passed explicitly to every component.

    Field names are snake_case; the JSON file uses camelCase (``dirBuild``).
    """

    version: str = "0.1.0"
    protocol: Protocol = Protocol.GROTH16
    prime: Prime = Prime.BN128
    optimization: int = Field(1, ge=0, le=2)
    verbose: bool = False
    dir_circuits: str = "circuits"
    dir_inputs: str = "inputs"
    dir_build: str = "build"
    dir_ptau: str = "ptau"
    circuits: str = "circuits.json"
    include: Tuple[str, ...] = ()
    circom_path: Optional[str] = None
    snarkjs_path: Optional[str] = None
    node_path: Optional[str] = None
    ptau_url: str = HERMEZ_PTAU_BASE
    ptau_timeout: int = Field(600, gt=0)  # seconds, whole transfer
    ptau_retries: int = Field(3, ge=1)

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircomkitConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidConfig(str(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by ``circomkit.json``."""
        return self.model_dump(mode="json", by_alias=True)

    def with_protocol(self, protocol: Protocol) -> "CircomkitConfig":
        return _revalidate(self, protocol=protocol)

    def with_prime(self, prime: Prime) -> "CircomkitConfig":
        return _revalidate(self, prime=prime)

    def with_optimization(self, level: int) -> "CircomkitConfig":
        # Levels above 2 behave like --O2 in circom.
        return _revalidate(self, optimization=min(level, 2))

    def with_verbose(self, verbose: bool) -> "CircomkitConfig":
        return _revalidate(self, verbose=verbose)

    def with_dirs(
        self,
        circuits: Optional[str] = None,
        inputs: Optional[str] = None,
        build: Optional[str] = None,
        ptau: Optional[str] = None,
    ) -> "CircomkitConfig":
        changes = {}
        if circuits is not None:
            changes["dir_circuits"] = str(circuits)
        if inputs is not None:
            changes["dir_inputs"] = str(inputs)
        if build is not None:
            changes["dir_build"] = str(build)
        if ptau is not None:
            changes["dir_ptau"] = str(ptau)
        return _revalidate(self, **changes)

    def with_include(self, path: str) -> "CircomkitConfig":
        return _revalidate(self, include=self.include + (str(path),))

    def with_tools(
        self,
        circom: Optional[str] = None,
        snarkjs: Optional[str] = None,
        node: Optional[str] = None,
    ) -> "CircomkitConfig":
        changes = {}
        if circom is not None:
            changes["circom_path"] = str(circom)
        if snarkjs is not None:
            changes["snarkjs_path"] = str(snarkjs)
        if node is not None:
            changes["node_path"] = str(node)
        return _revalidate(self, **changes)

    def circom_command(self) -> str:
        return self.circom_path or "circom"

    def snarkjs_command(self) -> str:
        return self.snarkjs_path or "snarkjs"

    def node_command(self) -> str:
        return self.node_path or "node"


class CircuitConfig(BaseModel):
    """Identity of a circuit: which template of which file, with which parameters.

    ``file`` is relative to the circuits directory; ``absolute_file``, when set,
    takes precedence. Parameter arity is left to the compiler.
    """

    name: str = Field(..., min_length=1)
    file: str = ""
    absolute_file: Optional[str] = None
    template: str = ""
    params: Tuple[int, ...] = ()
    public: Tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("public", "pubs")
    )

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def fill_defaults(cls, data: Any) -> Any:
        """Default ``file`` to ``<name>.circom`` and ``template`` to the name."""
        if isinstance(data, dict) and data.get("name"):
            data = dict(data)
            if not data.get("file"):
                data["file"] = f"{data['name']}.circom"
            if not data.get("template"):
                data["template"] = data["name"]
        return data

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Names become directory names under the build root."""
        if "/" in v or "\\" in v or v in (".", "..") or v.startswith("."):
            raise ValueError(f"Circuit name '{v}' must be a plain directory name")
        return v

    @field_validator("params", mode="before")
    @classmethod
    def validate_params(cls, v: Any) -> Tuple[int, ...]:
        """Template parameters are non-negative integers (no floats, no bools)."""
        if v is None:
            return ()
        items = list(v)
        for p in items:
            if isinstance(p, bool) or not isinstance(p, int):
                raise ValueError(f"Template parameter {p!r} must be an integer")
            if p < 0:
                raise ValueError(f"Template parameter {p} must be non-negative")
        return tuple(items)

    @field_validator("public", mode="before")
    @classmethod
    def validate_public(cls, v: Any) -> Tuple[str, ...]:
        if v is None:
            return ()
        items = list(v)
        duplicates = sorted({s for s in items if items.count(s) > 1})
        if duplicates:
            raise ValueError(f"Duplicate public signals not allowed: {duplicates}")
        return tuple(items)

    @classmethod
    def builder(cls, name: str) -> "CircuitBuilder":
        return CircuitBuilder(name)

    def main_component(self, include_path: str) -> str:
        """Render the main component that instantiates this template."""
        params = ", ".join(str(p) for p in self.params)
        public = ""
        if self.public:
            public = f" {{public [{', '.join(self.public)}]}}"
        return (
            "pragma circom 2.1.9;\n\n"
            f'include "{include_path}";\n\n'
            f"component main{public} = {self.template}({params});\n"
        )


class CircuitBuilder:
    """Mutable builder assembling an immutable CircuitConfig."""

    def __init__(self, name: str):
        self._fields: Dict[str, Any] = {"name": name}

    def file(self, file: str) -> "CircuitBuilder":
        self._fields["file"] = str(file)
        return self

    def absolute_file(self, path: str) -> "CircuitBuilder":
        self._fields["absolute_file"] = str(path)
        return self

    def template(self, template: str) -> "CircuitBuilder":
        self._fields["template"] = template
        return self

    def params(self, *params: int) -> "CircuitBuilder":
        self._fields["params"] = params
        return self

    def public(self, *signals: str) -> "CircuitBuilder":
        self._fields["public"] = signals
        return self

    def add_public(self, signal: str) -> "CircuitBuilder":
        self._fields["public"] = tuple(self._fields.get("public", ())) + (signal,)
        return self

    def build(self) -> CircuitConfig:
        try:
            return CircuitConfig.model_validate(self._fields)
        except ValidationError as e:
            raise InvalidConfig(str(e)) from e


def parse_circuits(data: Dict[str, Any]) -> Dict[str, CircuitConfig]:
    """Parse a ``circuits.json`` object (name -> circuit fields)."""
    if not isinstance(data, dict):
        raise InvalidConfig("circuits file must contain a JSON object")
    circuits: Dict[str, CircuitConfig] = {}
    for name, fields in data.items():
        if not isinstance(fields, dict):
            raise InvalidConfig(f"Circuit '{name}' must be a JSON object")
        try:
            circuits[name] = CircuitConfig.model_validate({**fields, "name": name})
        except ValidationError as e:
            raise InvalidConfig(f"Circuit '{name}': {e}") from e
    return circuits


def circuit_names(circuits: Dict[str, CircuitConfig]) -> List[str]:
    return sorted(circuits)
