from bootstrap_service.bootstrap import bootstrap

__all__ = ["bootstrap"]
