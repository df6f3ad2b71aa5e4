"""
Contract Validation Module

JSON Schema контракты документов хранилища.
"""

from .validators import (
    ContractValidator,
    DocumentKind,
    contract_for,
    field_path,
    load_contract,
    validate_document,
)

__all__ = [
    # Classes
    "DocumentKind",
    "ContractValidator",
    # Functions
    "load_contract",
    "field_path",
    "contract_for",
    "validate_document",
]
