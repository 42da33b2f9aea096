"""FreightOps stock allocation and booking progression engine"""

__version__ = "1.0.0"
