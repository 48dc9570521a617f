"""Powers-of-tau sizing: which ceremony file a circuit needs.

The Hermez ceremony publishes one file per power ``p`` in ``[8, 28]``; file
``p`` supports circuits with up to ``2^p`` constraints.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from circomkit.errors import PtauUnavailable
from circomkit.kernel.config import HERMEZ_PTAU_BASE

MIN_POWER = 8
MAX_POWER = 28
CEREMONY = "hermez"

# blake2b-512 digests of the Hermez files, as listed in the snarkjs README.
# Powers without an entry are accepted on header and length, then pinned by
# the digest recorded at download time.
HERMEZ_CHECKSUMS = {
    14: "eeefbcf7c3803b523c94112023c7ff89558f9b8e0cf5d6cdcba3ade60f168af4a181c9c21774b94fbae6c90411995f7d854d02ebd93fb66043dbb06f17a831c1",
    15: "982372c867d229c236091f767e703253249a9b432c1710b4f326306bfa2428a17b06240359606cfe4d580b10a5a1f63fbed499527069c18ae17060472969ae6e",
    16: "6a6277a2f74e1073601b4f9fed6e1e55226917efb0f0db8a07d98ab01df1ccf43eb0e8c3159432acd4960e2f29fe84a4198501fa54c8dad9e43297453efec125",
    28: "55c77ce8562366c91e7cda394cf7b7c15a06c12d8c905e8b36ba9cf5e13eb37d1a429c589e8eaba4c591bc4b88a0e2828745a53e170eac300236f5c1a326f41a",
}


class PtauInfo(BaseModel):
    """A published ceremony file.

    ``size`` and ``checksum`` (blake2b-512, hex) are optional; without them the
    resolver falls back to header checks and the checksum it recorded itself.
    """

    ceremony: str = CEREMONY
    power: int = Field(..., ge=MIN_POWER, le=MAX_POWER)
    filename: str
    url: str
    size: Optional[int] = Field(None, ge=0)
    checksum: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


def ptau_filename(power: int) -> str:
    return f"powersOfTau28_hez_final_{power:02d}.ptau"


def required_power(constraint_count: int) -> int:
    """Smallest power with ``2^p >= constraint_count``, clamped below at 8."""
    if constraint_count < 0:
        raise ValueError(f"constraint count must be non-negative, got {constraint_count}")
    power = max(MIN_POWER, (constraint_count - 1).bit_length() if constraint_count > 1 else 0)
    if power > MAX_POWER:
        raise PtauUnavailable(
            f"Circuit has {constraint_count} constraints; the largest published "
            f"ceremony file supports 2^{MAX_POWER}"
        )
    return power


def for_power(power: int, base_url: str = HERMEZ_PTAU_BASE) -> PtauInfo:
    if not MIN_POWER <= power <= MAX_POWER:
        raise PtauUnavailable(f"No published ceremony file for power {power}")
    filename = ptau_filename(power)
    return PtauInfo(
        power=power,
        filename=filename,
        url=f"{base_url.rstrip('/')}/{filename}",
        checksum=HERMEZ_CHECKSUMS.get(power),
    )


def recommended(constraint_count: int, base_url: str = HERMEZ_PTAU_BASE) -> PtauInfo:
    """Return the smallest published ceremony file covering ``constraint_count``."""
    return for_power(required_power(constraint_count), base_url)
