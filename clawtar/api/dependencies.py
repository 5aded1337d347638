from fastapi import Request

from clawtar.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """The container built by the app lifespan"""
    return request.app.state.container
