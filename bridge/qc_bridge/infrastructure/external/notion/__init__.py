"""
Integración con la API de Notion.

Objetivos de diseño:
- Lectura incremental por last_edited_time (paginada con next_cursor).
- Escritura de vuelta mínima: solo id de tarea + check "Linked".
- Rate limit respetado con pausas entre llamadas y retry en 429/5xx.
"""
