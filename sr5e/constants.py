"""Shared constants used by the migration rules and hosts."""

from __future__ import annotations

import re
from types import MappingProxyType

SYSTEM_ID = "shadowrun5e"

# Package name that marks a compendium as owned by the world rather than an
# installed add-on module. Only world packs are migrated.
WORLD_PACKAGE = "world"

# Skill groups whose entries carry a ``specs`` field, relative to the
# document root.
SKILL_GROUP_PATHS: tuple[str, ...] = (
    "data.skills.active",
    "data.skills.knowledge.street.value",
    "data.skills.knowledge.professional.value",
    "data.skills.knowledge.academic.value",
    "data.skills.knowledge.interests.value",
    "data.skills.language.value",
)

SPEC_SEPARATORS = re.compile(r"[,/|.]+")

DEFAULT_ACTION = MappingProxyType(
    {
        "type": "",
        "category": "",
        "attribute": "",
        "attribute2": "",
        "skill": "",
        "spec": False,
        "mod": 0,
        "limit": {"value": 0, "attribute": ""},
        "extended": False,
        "damage": {
            "type": "",
            "element": "",
            "value": 0,
            "ap": {"value": 0},
            "attribute": "",
        },
        "opposed": {
            "type": "",
            "attribute": "",
            "attribute2": "",
            "skill": "",
            "mod": 0,
            "description": "",
        },
    }
)
