"""
Plugin management API routes.

Endpoints for listing, installing, upgrading and uninstalling plugins, and
for serving plugin pages.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ticketry.api.dependencies import get_plugin_manager
from ticketry.api.schemas import PluginActionResponse, PluginResponse
from ticketry.exceptions import PluginError
from ticketry.plugins.manager import HOST_BASENAME, PluginManager
from ticketry.plugins.manifest import PluginInfo

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(
    manager: PluginManager, info: PluginInfo, installed: dict[str, bool]
) -> PluginResponse:
    is_installed = info.basename in installed
    return PluginResponse(
        basename=info.basename,
        name=info.name,
        description=info.description,
        version=info.version,
        author=info.author,
        contact=info.contact,
        url=info.url,
        requires=info.requires,
        installed=is_installed,
        enabled=installed.get(info.basename, False),
        registered=manager.is_registered(info.basename),
        needs_upgrade=(
            is_installed
            and info.basename != HOST_BASENAME
            and manager.needs_upgrade(info.basename)
        ),
    )


@router.get("", response_model=list[PluginResponse])
async def list_plugins(
    manager: PluginManager = Depends(get_plugin_manager),
) -> list[PluginResponse]:
    """
    List all available plugins.

    Includes the host itself and every plugin found in the plugin directory
    or installed as a package, with install and registration state.
    """
    installed = manager.get_installed()
    return [
        _to_response(manager, info, installed)
        for info in manager.find_all().values()
    ]


@router.get("/{basename}", response_model=PluginResponse)
async def get_plugin(
    basename: str,
    manager: PluginManager = Depends(get_plugin_manager),
) -> PluginResponse:
    """Get a single plugin."""
    info = manager.get_info(basename)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Plugin {basename} not found")
    return _to_response(manager, info, manager.get_installed())


@router.post("/{basename}/install", response_model=PluginActionResponse)
async def install_plugin(
    basename: str,
    manager: PluginManager = Depends(get_plugin_manager),
) -> PluginActionResponse:
    """Install a plugin and apply its schema."""
    if manager.get_info(basename) is None:
        raise HTTPException(status_code=404, detail=f"Plugin {basename} not found")
    if basename == HOST_BASENAME or manager.is_installed(basename):
        raise HTTPException(
            status_code=409, detail=f"Plugin {basename} is already installed"
        )

    if not manager.install(basename):
        raise HTTPException(
            status_code=400, detail=f"Plugin {basename} failed to install"
        )
    return PluginActionResponse(basename=basename, action="install", success=True)


@router.post("/{basename}/upgrade", response_model=PluginActionResponse)
async def upgrade_plugin(
    basename: str,
    manager: PluginManager = Depends(get_plugin_manager),
) -> PluginActionResponse:
    """Apply a plugin's pending schema steps."""
    if not manager.is_installed(basename):
        raise HTTPException(status_code=404, detail=f"Plugin {basename} is not installed")

    if not manager.upgrade(basename):
        raise HTTPException(status_code=400, detail=f"Plugin {basename} failed to upgrade")
    return PluginActionResponse(basename=basename, action="upgrade", success=True)


@router.delete("/{basename}", response_model=PluginActionResponse)
async def uninstall_plugin(
    basename: str,
    manager: PluginManager = Depends(get_plugin_manager),
) -> PluginActionResponse:
    """Uninstall a plugin. Its tables and configuration are kept."""
    if not manager.is_installed(basename):
        raise HTTPException(status_code=404, detail=f"Plugin {basename} is not installed")

    success = bool(manager.uninstall(basename))
    return PluginActionResponse(
        basename=basename,
        action="uninstall",
        success=success,
        message=None if success else "Uninstall callback reported a failure",
    )


@router.get("/{basename}/pages/{page}")
async def plugin_page(
    basename: str,
    page: str,
    request: Request,
    manager: PluginManager = Depends(get_plugin_manager),
) -> Any:
    """Render a page provided by a registered plugin."""
    if not manager.is_registered(basename):
        raise HTTPException(status_code=404, detail=f"Plugin {basename} is not registered")

    try:
        return manager.render_page(basename, page, **dict(request.query_params))
    except PluginError as e:
        raise HTTPException(status_code=404, detail=str(e))
