"""FastAPI dependency providers for the objects built at startup."""

from typing import Annotated

from fastapi import Depends, Request

from app.libs.config import Settings
from app.libs.data_gateway import DataGateway


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> DataGateway:
    return request.app.state.gateway


SettingsDep = Annotated[Settings, Depends(get_settings)]
GatewayDep = Annotated[DataGateway, Depends(get_gateway)]
