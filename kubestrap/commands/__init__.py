from . import bootstrap, config, inventory

__all__ = ['bootstrap', 'config', 'inventory']
