"""ASGI entrypoint for the matching API."""

from nutrition_matcher.api.app import create_app
from nutrition_matcher.containers import build_container

app = create_app(build_container())
