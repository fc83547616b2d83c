"""ASGI entrypoint for the instance meter API."""

from instance_meter.api.app import create_app
from instance_meter.containers import build_container

app = create_app(build_container())
