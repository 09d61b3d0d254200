import logging
from typing import Any, Dict, List, Sequence

from dbus_fast import Variant
from pydantic import ValidationError

from iscsi_bridge.bus.connection import BusConnection
from iscsi_bridge.config import Settings
from iscsi_bridge.core.exceptions import MalformedReplyError, UnsuccessfulActionError
from iscsi_bridge.domains.iscsi.models import (
    Initiator,
    ISCSIAuth,
    ISCSINode,
    LoginResult,
    node_id_from_path,
    node_path,
)


class ISCSIClient:
    """
    Client for the iSCSI part of the storage D-Bus service.

    Each method is a single round trip. Transport problems (bus errors,
    timeouts, unexpected replies) raise ServiceError; negative outcomes the
    service reports on purpose (rejected discovery, failed login, refused
    logout) are returned as values.
    """

    def __init__(self, bus: BusConnection, settings: Settings):
        self._bus = bus
        self._storage_path = settings.storage_object_path
        self._nodes_path = settings.iscsi_nodes_path
        self._initiator_interface = settings.initiator_interface
        self._node_interface = settings.node_interface

    async def get_initiator(self) -> Initiator:
        properties = await self._bus.get_all_properties(
            self._storage_path, self._initiator_interface
        )
        try:
            return Initiator(name=properties["InitiatorName"], ibft=properties["IBFT"])
        except (KeyError, ValidationError) as e:
            raise MalformedReplyError(f"Unexpected initiator properties: {e}") from e

    async def set_initiator_name(self, name: str) -> None:
        await self._bus.set_property(
            self._storage_path, self._initiator_interface, "InitiatorName", "s", name
        )
        logging.info(f"iSCSI initiator name set to {name}")

    async def get_nodes(self) -> List[ISCSINode]:
        objects = await self._bus.get_managed_objects(self._storage_path)
        nodes = []
        for path, interfaces in objects.items():
            properties = interfaces.get(self._node_interface)
            if properties is None or not path.startswith(self._nodes_path + "/"):
                continue
            node_id = node_id_from_path(path)
            if node_id is None:
                raise MalformedReplyError(f"Unexpected iSCSI node path {path}")
            try:
                nodes.append(ISCSINode.from_properties(node_id, properties))
            except ValidationError as e:
                raise MalformedReplyError(f"Unexpected properties for {path}: {e}") from e
        return sorted(nodes, key=lambda node: node.id)

    async def discover(self, address: str, port: int, options: ISCSIAuth) -> bool:
        """Returns False when the service rejects the discovery."""
        code = await self._call_status(
            self._storage_path,
            self._initiator_interface,
            "Discover",
            "sua{sv}",
            [address, port, self._variants(options.bus_options())],
        )
        if code != 0:
            logging.warning(f"iSCSI discovery on {address}:{port} rejected (status {code})")
            return False
        logging.info(f"iSCSI discovery on {address}:{port} finished")
        return True

    async def set_startup(self, node_id: int, startup: str) -> None:
        await self._bus.set_property(
            node_path(self._nodes_path, node_id), self._node_interface, "Startup", "s", startup
        )
        logging.info(f"iSCSI node {node_id} startup set to {startup}")

    async def delete_node(self, node_id: int) -> None:
        code = await self._call_status(
            self._storage_path,
            self._initiator_interface,
            "Delete",
            "o",
            [node_path(self._nodes_path, node_id)],
        )
        if code != 0:
            raise UnsuccessfulActionError(f"delete iSCSI node {node_id}", code)
        logging.info(f"iSCSI node {node_id} deleted")

    async def login(self, node_id: int, auth: ISCSIAuth, startup: str) -> LoginResult:
        options = auth.bus_options()
        options["Startup"] = startup
        code = await self._call_status(
            node_path(self._nodes_path, node_id),
            self._node_interface,
            "Login",
            "a{sv}",
            [self._variants(options)],
        )
        result = LoginResult.from_code(code)
        if result is LoginResult.SUCCESS:
            logging.info(f"Logged in to iSCSI node {node_id}")
        else:
            logging.warning(f"Login to iSCSI node {node_id} failed: {result.value} (status {code})")
        return result

    async def logout(self, node_id: int) -> bool:
        """Returns False when the service refuses the logout."""
        code = await self._call_status(
            node_path(self._nodes_path, node_id), self._node_interface, "Logout"
        )
        if code != 0:
            logging.warning(f"Logout from iSCSI node {node_id} refused (status {code})")
            return False
        logging.info(f"Logged out from iSCSI node {node_id}")
        return True

    async def _call_status(
        self,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Sequence[Any] = (),
    ) -> int:
        reply = await self._bus.call(path, interface, member, signature, body)
        if not reply or isinstance(reply[0], bool) or not isinstance(reply[0], int):
            raise MalformedReplyError(f"Unexpected {member} reply on {path}: {reply!r}")
        return reply[0]

    @staticmethod
    def _variants(options: Dict[str, str]) -> Dict[str, Variant]:
        return {key: Variant("s", value) for key, value in options.items()}
