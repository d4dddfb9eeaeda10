from .sim import SimAccount, SimBroker, SimPosition

__all__ = ["SimAccount", "SimBroker", "SimPosition"]
