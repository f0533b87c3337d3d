"""
Key Builder Module

Utilities for creating standardized, colon-separated cache keys.
"""

import hashlib
import json
from typing import Any, Optional


class KeyBuilder:
    """
    Utility for building standardized cache keys.

    Scalars are rendered as-is, ``None`` as ``null`` and containers as a
    short stable hash, so equal arguments always produce equal keys.
    """

    @staticmethod
    def build(*parts: Any, namespace: Optional[str] = None,
              version: Optional[str] = None) -> str:
        """
        Build a cache key from parts.

        Args:
            *parts: Parts of the key
            namespace: Optional leading namespace
            version: Optional trailing version tag

        Returns:
            A colon-separated key string
        """
        processed_parts = []

        if namespace:
            processed_parts.append(str(namespace))

        for part in parts:
            if part is None:
                processed_parts.append("null")
            elif isinstance(part, (int, float, bool, str)):
                processed_parts.append(str(part))
            elif isinstance(part, (dict, list, tuple)):
                part_json = json.dumps(part, sort_keys=True, default=str)
                processed_parts.append(hashlib.md5(part_json.encode()).hexdigest()[:10])
            else:
                processed_parts.append(str(getattr(part, "value", part)))

        if version:
            processed_parts.append(f"v{version}")

        return ":".join(processed_parts)

    @staticmethod
    def dashboard_key(endpoint: str, period: Optional[str], role: str,
                      namespace: str = "dashboard") -> str:
        """
        Build the key for one dashboard view.

        Args:
            endpoint: Dashboard endpoint name (e.g. ``teacher``)
            period: Reporting period, or a view-specific discriminator
            role: Role the view was computed for

        Returns:
            Key of the form ``<namespace>:<endpoint>:<period>:<role>``
        """
        return KeyBuilder.build(endpoint, period, role, namespace=namespace)
