# src/schemas/taxonomy.py
"""
Role/interest taxonomy used to derive directory categories for actors.

Provides functions to:
- Load and cache the taxonomy
- Look up categories for a single role or interest token
- Derive the category union for an attendee's roles and interests
"""

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml

from src.configs.config import Config


@dataclass(frozen=True)
class Taxonomy:
    """Lookup tables keyed by role token and interest token."""

    role_taxonomy: Dict[str, List[str]] = field(default_factory=dict)
    interest_capabilities: Dict[str, List[str]] = field(default_factory=dict)
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Taxonomy":
        return cls(
            role_taxonomy={
                str(k): list(v or []) for k, v in (data.get("role_taxonomy") or {}).items()
            },
            interest_capabilities={
                str(k): list(v or [])
                for k, v in (data.get("interest_capabilities") or {}).items()
            },
            version=data.get("version"),
        )

    def categories_for_role(self, role: str) -> List[str]:
        return self.role_taxonomy.get(role, [])

    def categories_for_interest(self, interest: str) -> List[str]:
        return self.interest_capabilities.get(interest, [])

    def derive_categories(
        self, roles: Iterable[str], interests: Iterable[str]
    ) -> List[str]:
        """
        Union of taxonomy lookups for every role and every interest.

        Order is first-seen (roles before interests) so repeated
        materialization of the same attendee yields the same list.
        """
        categories: List[str] = []
        for role in roles:
            for cat in self.categories_for_role(role):
                if cat not in categories:
                    categories.append(cat)
        for interest in interests:
            for cat in self.categories_for_interest(interest):
                if cat not in categories:
                    categories.append(cat)
        return categories


@lru_cache
def load_taxonomy(path: Optional[str] = None) -> Taxonomy:
    """
    Load and cache the taxonomy.

    Args:
        path: Optional YAML path; defaults to the bundled taxonomy.yaml
    """
    if path is None:
        return Taxonomy.from_dict(Config.load_taxonomy())

    taxonomy_path = Path(path)
    if not taxonomy_path.exists():
        raise FileNotFoundError(f"Taxonomy file not found at: {taxonomy_path}")
    with open(taxonomy_path, "r", encoding="utf-8") as f:
        return Taxonomy.from_dict(yaml.safe_load(f) or {})
