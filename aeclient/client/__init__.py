from aeclient.client.dispatcher import AsyncDispatcher, RequestCallback
from aeclient.client.engine import EngineClient
from aeclient.client.executor import RequestExecutor

__all__ = ["AsyncDispatcher", "EngineClient", "RequestCallback", "RequestExecutor"]
