# module processor.commercetools.custom_types
"""
Résolution du type personnalisé qui porte l'id de session Briqpay (carts et orders).
Le couple (key, resourceTypeIds) identifie le type: une même key peut exister pour
d'autres ressources, d'où la recherche sur les deux critères.
"""
import logging
from typing import Any, Dict, Optional

from processor.errors import ConfigurationError
from processor.infra import commercetools_client as ct

logger = logging.getLogger(__name__)

# un type "order" s'applique aussi aux carts
RESOURCE_TYPE_ID = "order"


class CustomTypeResolver:
    """Résout le type une seule fois puis le garde en mémoire jusqu'à invalidate()."""

    def __init__(self, type_key: str, resource_type_id: str = RESOURCE_TYPE_ID):
        self.type_key = type_key
        self.resource_type_id = resource_type_id
        self._type: Optional[Dict[str, Any]] = None

    async def resolve(self) -> Dict[str, Any]:
        if self._type is not None:
            return self._type
        res = await ct.get_commercetools_client().get(
            "/types",
            params={
                "where": f'key="{self.type_key}" and resourceTypeIds contains "{self.resource_type_id}"',
                "limit": 1,
            },
        )
        results = res.get("results") or []
        if not results:
            raise ConfigurationError(
                f'Custom type "{self.type_key}" for resource "{self.resource_type_id}" not found'
            )
        self._type = results[0]
        logger.info("custom type resolved key=%s id=%s", self.type_key, self._type.get("id"))
        return self._type

    async def type_id(self) -> str:
        return (await self.resolve())["id"]

    @property
    def is_resolved(self) -> bool:
        return self._type is not None

    def invalidate(self) -> None:
        self._type = None
