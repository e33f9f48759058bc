from hakgyo.health.router import router


__all__ = ["router"]
