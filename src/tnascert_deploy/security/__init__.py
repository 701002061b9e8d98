"""Certificate material loading, verification and naming."""

from tnascert_deploy.security.keypair import (
    PemMaterial,
    generate_certificate_name,
    parse_certificate_epoch,
    read_pem_material,
    verify_certificate_key_pair,
)

__all__ = [
    "PemMaterial",
    "generate_certificate_name",
    "parse_certificate_epoch",
    "read_pem_material",
    "verify_certificate_key_pair",
]
