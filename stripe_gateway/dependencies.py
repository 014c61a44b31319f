"""Accessors for the handles built once in the application lifespan."""
from fastapi import Request

from stripe_gateway.config import Settings
from stripe_gateway.key_client import KeyResolver
from stripe_gateway.runs_client import RunsClient
from stripe_gateway.stripe_service import StripeService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_stripe(request: Request) -> StripeService:
    return request.app.state.stripe


def get_key_resolver(request: Request) -> KeyResolver:
    return request.app.state.key_resolver


def get_runs(request: Request) -> RunsClient:
    return request.app.state.runs
