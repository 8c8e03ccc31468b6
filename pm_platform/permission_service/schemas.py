from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRoleResponse(CamelModel):
    role_code: str
    role_name: str


class RoleChangeResponse(CamelModel):
    user_id: int
    old_role: str
    new_role: str
