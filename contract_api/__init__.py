"""HTTP surface for the contract engine."""

from contract_api.app import create_app

__all__ = ["create_app"]
