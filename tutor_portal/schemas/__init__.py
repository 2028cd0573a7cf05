from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class PortalModel(BaseModel):
    """
    Base class for every schema parsed from the backend.
    Field names are snake_case in Python and camelCase on the wire, unknown fields are ignored.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
