"""
qc-bridge: sincronización one-way de la base "Quick Capture" de Notion hacia
las tareas en PostgreSQL (Supabase).
"""
__version__ = "2.1.0"
