"""roscf: restricted open-shell Hartree-Fock with ECP basis-set assembly."""

from importlib.metadata import PackageNotFoundError, version as _dist_version

from roscf.basis import ECPBasisSet, ECPShell, ECPShellInfo, assemble_ecp_basis
from roscf.frontend import Molecule, construct_ecp_from_dict, run_rohf
from roscf.hf import ROHF, SCFOptions, SCFResult, rohf, rohf_dense
from roscf.linalg import BlockMatrix, BlockVector

try:
    __version__ = _dist_version("roscf")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Linear algebra
    "BlockMatrix",
    "BlockVector",
    # ECP basis sets
    "ECPBasisSet",
    "ECPShell",
    "ECPShellInfo",
    "assemble_ecp_basis",
    "construct_ecp_from_dict",
    # SCF
    "Molecule",
    "ROHF",
    "SCFOptions",
    "SCFResult",
    "rohf",
    "rohf_dense",
    "run_rohf",
]
