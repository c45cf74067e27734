from service_scheduler.api.app import create_app

__all__ = ["create_app"]
