"""
Observabilidad: métricas/health en memoria y alertas hacia Notion.
"""
