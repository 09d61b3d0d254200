from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Node property name on the bus -> ISCSINode field
NODE_PROPERTIES = {
    "Target": "target",
    "Address": "address",
    "Port": "port",
    "Interface": "interface",
    "IBFT": "ibft",
    "Connected": "connected",
    "Startup": "startup",
}


class Initiator(BaseModel):
    """The iSCSI initiator of this system (singleton)."""

    name: str = Field(..., description="Initiator name (IQN)")
    ibft: bool = Field(..., description="True if configured through iBFT firmware")


class ISCSINode(BaseModel):
    """
    A discovered iSCSI target node.

    ``id`` comes from the node's object path and is only stable while the
    storage service keeps the node around.
    """

    id: int = Field(..., ge=0, description="Node identifier")
    target: str = Field(default="", description="Target name")
    address: str = Field(default="", description="Portal address")
    port: int = Field(default=0, ge=0, le=65535, description="Portal port")
    interface: str = Field(default="", description="iSCSI interface")
    ibft: bool = Field(default=False, description="True if the node comes from iBFT")
    connected: bool = Field(default=False, description="True if logged in")
    startup: str = Field(default="", description="Startup mode (onboot, manual, automatic)")

    @classmethod
    def from_properties(cls, node_id: int, properties: Dict[str, Any]) -> "ISCSINode":
        """Builds a node from bus properties; raises ValidationError on bad values."""
        values = {
            field: properties[key]
            for key, field in NODE_PROPERTIES.items()
            if key in properties
        }
        return cls(id=node_id, **values)


class ISCSIAuth(BaseModel):
    """Optional CHAP credentials; reverse_* are used for mutual authentication."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    username: Optional[str] = None
    password: Optional[str] = None
    reverse_username: Optional[str] = None
    reverse_password: Optional[str] = None

    def bus_options(self) -> Dict[str, str]:
        """Credentials keyed by their bus option names, skipping unset ones."""
        options = {
            "Username": self.username,
            "Password": self.password,
            "ReverseUsername": self.reverse_username,
            "ReversePassword": self.reverse_password,
        }
        return {key: value for key, value in options.items() if value is not None}


class LoginResult(str, Enum):
    """
    Outcome of a login attempt.

    Every value is a regular result; only transport problems are errors.
    """

    SUCCESS = "Success"
    INVALID_STARTUP = "InvalidStartup"
    FAILED = "Failed"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    ALREADY_LOGGED_IN = "AlreadyLoggedIn"
    UNREACHABLE = "Unreachable"

    @classmethod
    def from_code(cls, code: int) -> "LoginResult":
        return _LOGIN_CODES.get(code, cls.FAILED)


_LOGIN_CODES = {
    0: LoginResult.SUCCESS,
    1: LoginResult.INVALID_STARTUP,
    2: LoginResult.FAILED,
    3: LoginResult.AUTHENTICATION_FAILED,
    4: LoginResult.ALREADY_LOGGED_IN,
    5: LoginResult.UNREACHABLE,
}


class InitiatorParams(BaseModel):
    name: str = Field(..., min_length=1)


class DiscoverParams(BaseModel):
    address: str = Field(..., min_length=1)
    port: int = Field(..., ge=0, le=65535)
    options: ISCSIAuth = Field(default_factory=ISCSIAuth)


class NodeParams(BaseModel):
    startup: str


class LoginParams(ISCSIAuth):
    """Login body: credentials flattened next to the startup mode."""

    startup: str

    def auth(self) -> ISCSIAuth:
        return ISCSIAuth(
            username=self.username,
            password=self.password,
            reverse_username=self.reverse_username,
            reverse_password=self.reverse_password,
        )


class LoginError(BaseModel):
    code: LoginResult


def node_id_from_path(path: str) -> Optional[int]:
    """Returns the numeric id at the end of a node object path, if any."""
    _, _, tail = path.rpartition("/")
    return int(tail) if tail.isdigit() else None


def node_path(nodes_path: str, node_id: int) -> str:
    return f"{nodes_path}/{node_id}"
