"""Resolves taxonomy references, creating terms for unknown names."""
import logging
from typing import Dict, Iterable, List

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Resolver for topic and type references."""

    def __init__(self, store):
        """
        Initialize the resolver.

        Args:
            store: Storage manager holding taxonomy terms
        """
        self.store = store

    def resolve_or_create(self, refs: Iterable[str], kind: str) -> List[str]:
        """
        Resolve a mix of term ids and names to term ids.

        Existing ids pass through. Anything else is treated as a name and
        resolved to the term with that name, which is created if missing.

        Args:
            refs: Term ids and/or names
            kind: Taxonomy kind ('topic' or 'type')

        Returns:
            Term ids in input order

        Raises:
            ValueError: If a reference is blank
        """
        resolved: Dict[str, str] = {}
        ids = []

        for ref in refs:
            key = str(ref).strip() if ref is not None else ''
            if not key:
                raise ValueError(f"Blank {kind} reference")

            if key not in resolved:
                resolved[key] = self._resolve(key, kind)
            ids.append(resolved[key])

        return ids

    def _resolve(self, ref: str, kind: str) -> str:
        if self.store.get_term(kind, ref) is not None:
            return ref

        term = self.store.find_term_by_name(kind, ref)
        if term is None:
            term = self.store.create_term(kind, ref)
            logger.info(f"Created missing {kind} '{ref}'")
        return term.id
