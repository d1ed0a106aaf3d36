"""
Shared Database Infrastructure
"""
from src.shared.infrastructure.database.base_model import Base

__all__ = ["Base"]
