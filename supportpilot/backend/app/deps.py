# supportpilot/backend/app/deps.py
from fastapi import Request

from .ai.client import GenerationRegistry
from .store.tickets_store import TicketsStore


def get_store(request: Request) -> TicketsStore:
    """FastAPI dependency: the application's ticket store, hydrated."""
    store = request.app.state.tickets_store
    store.hydrate()
    return store


def get_generations(request: Request) -> GenerationRegistry:
    return request.app.state.generations
