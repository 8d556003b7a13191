"""
Base models for elaboration records.

Shared ``model_config`` for every design-model class.

Mutability policies:
    StrictModel (extra="forbid", assignment validation) is for records the
    front-end lowers into, which are never mutated after lowering.
    FrozenModel (extra="forbid", frozen) is for value objects that must be
    hashable, such as signal references, guards and protocol variants.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class ElabBaseModel(BaseModel):
    """Base model with shared configuration for all design-model records.

    Provides camelCase aliasing and allows field population by either
    alias or Python name.
    """

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class StrictModel(ElabBaseModel):
    """Base model that forbids unknown fields and validates assignment.

    Use for declarations (ports, bundles, modules, designs) where extra
    fields likely indicate front-end typos.
    """

    model_config = {
        **ElabBaseModel.model_config,
        "extra": "forbid",
        "validate_assignment": True,
    }


class FrozenModel(ElabBaseModel):
    """Immutable, hashable base model.

    Note: Instances are safe to use in sets and as dictionary keys.
    """

    model_config = {
        **ElabBaseModel.model_config,
        "extra": "forbid",
        "frozen": True,
    }
