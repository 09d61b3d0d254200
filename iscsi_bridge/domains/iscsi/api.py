"""
HTTP API for the iSCSI part of the storage service.

Every route is a thin proxy: one ISCSIClient call, its outcome mapped to a
status code. ServiceError is left to the application's error handler.
"""
import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, Path, Response, status
from fastapi.responses import JSONResponse

from iscsi_bridge.dependencies import get_iscsi_client
from iscsi_bridge.domains.iscsi.client import ISCSIClient
from iscsi_bridge.domains.iscsi.models import (
    DiscoverParams,
    Initiator,
    InitiatorParams,
    ISCSINode,
    LoginError,
    LoginParams,
    LoginResult,
    NodeParams,
)

iscsi_router = APIRouter(
    prefix="/api/storage/iscsi",
    tags=["iscsi"],
)

NodeId = Annotated[int, Path(ge=0, description="iSCSI node identifier")]
HTTP_422_UNPROCESSABLE = 422


@iscsi_router.get("/initiator", response_model=Initiator)
async def get_initiator(client: ISCSIClient = Depends(get_iscsi_client)) -> Initiator:
    return await client.get_initiator()


@iscsi_router.patch("/initiator", status_code=status.HTTP_204_NO_CONTENT)
async def update_initiator(
    params: InitiatorParams, client: ISCSIClient = Depends(get_iscsi_client)
) -> Response:
    await client.set_initiator_name(params.name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@iscsi_router.get("/nodes", response_model=List[ISCSINode])
async def get_nodes(client: ISCSIClient = Depends(get_iscsi_client)) -> List[ISCSINode]:
    return await client.get_nodes()


@iscsi_router.post(
    "/discover",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"description": "Discovery rejected by the storage service"}},
)
async def discover(
    params: DiscoverParams, client: ISCSIClient = Depends(get_iscsi_client)
) -> Response:
    """
    Discover targets on a portal.

    HTTP Status Codes:
        204: Discovery finished
        400: The storage service rejected the discovery
    """
    accepted = await client.discover(params.address, params.port, params.options)
    if not accepted:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@iscsi_router.patch("/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_node(
    params: NodeParams,
    node_id: NodeId,
    client: ISCSIClient = Depends(get_iscsi_client),
) -> Response:
    await client.set_startup(node_id, params.startup)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@iscsi_router.delete("/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    node_id: NodeId, client: ISCSIClient = Depends(get_iscsi_client)
) -> Response:
    await client.delete_node(node_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@iscsi_router.post(
    "/nodes/{node_id}/login",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={422: {"model": LoginError, "description": "Login did not succeed"}},
)
async def login_node(
    params: LoginParams,
    node_id: NodeId,
    client: ISCSIClient = Depends(get_iscsi_client),
) -> Response:
    """
    Log in to a node.

    HTTP Status Codes:
        204: Logged in
        422: Login failed; the body's ``code`` tells why
    """
    result = await client.login(node_id, params.auth(), params.startup)
    if result is LoginResult.SUCCESS:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    logging.info(f"API: login to node {node_id} answered with {result.value}")
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content=LoginError(code=result).model_dump(mode="json"),
    )


@iscsi_router.post("/nodes/{node_id}/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_node(
    node_id: NodeId, client: ISCSIClient = Depends(get_iscsi_client)
) -> Response:
    if not await client.logout(node_id):
        return Response(status_code=HTTP_422_UNPROCESSABLE)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
