"""core/ -- Kernel layer: configuration and the error taxonomy.

Layer rule: core/ imports only stdlib + third-party libraries. It does NOT
import from api/ or auth/.
"""
