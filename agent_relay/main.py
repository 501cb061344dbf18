# Run from project root: uvicorn agent_relay.main:app --reload

import logging

from fastapi import FastAPI

from agent_relay.api.routes import router
from agent_relay.core.config import AgentConfig
from agent_relay.services.agent_service import AgentCommunicationService


def create_app(service: AgentCommunicationService | None = None) -> FastAPI:
    """Build the app around one service instance, created here unless injected."""
    if service is None:
        config = AgentConfig.from_env()
        logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
        service = AgentCommunicationService(config)
        errors = config.validate()
        if errors:
            logging.getLogger(__name__).warning("Config incomplete: %s", "; ".join(errors))

    app = FastAPI(title="Agent Relay")
    app.state.agent_service = service
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    print("Agent relay booting...")
