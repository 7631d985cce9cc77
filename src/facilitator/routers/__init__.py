from src.facilitator.routers import discovery, general, payments

__all__ = ["discovery", "general", "payments"]
