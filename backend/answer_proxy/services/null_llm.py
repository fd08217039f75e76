from backend.answer_proxy.errors import ServerMisconfigured


class NullLLMService:
    """Non-None default when no provider is configured. Fails only when called."""

    configured = False

    def __init__(self, provider_name: str = "none", model_name: str = "none"):
        self.provider_name = provider_name
        self.model_name = model_name

    async def generate(self, *args, **kwargs):
        raise ServerMisconfigured()
