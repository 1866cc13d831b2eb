"""
Servidor HTTP de health del bridge.
"""
