from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from kubernetes import client

from mco import db
from mco.api import create_app
from mco.controller import ClusterController
from mco.crd import register_all
from mco.dispatcher import Dispatcher
from mco.kube_ops import KubernetesPlatform, load_config
from mco.reconciler import ClusterOperator
from mco.render import default_renderer
from mco.runtime import RuntimeState
from mco.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

runtime = RuntimeState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init_db()
    load_config(settings.kubeconfig)
    api_client = client.ApiClient()
    platform = KubernetesPlatform(api_client)

    if settings.register_crds:
        register_all(client.ApiextensionsV1Api(api_client), timeout=settings.request_timeout_s)

    operator = ClusterOperator(platform, default_renderer(settings.templates_dir))
    dispatcher = Dispatcher(operator, runtime)
    controller = ClusterController(platform.custom, dispatcher)

    app.state.dispatcher = dispatcher
    app.state.platform_check = lambda: platform.available(timeout=settings.request_timeout_s)
    controller.start()
    try:
        yield
    finally:
        controller.stop()
        dispatcher.stop()


app = create_app(runtime, lifespan=lifespan)


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("MCO_HOST", "0.0.0.0"), port=int(os.getenv("MCO_PORT", "8000")))
