"""FAAE Projetos core service.

Project and task management for an architecture firm: task lifecycle with
history and notifications, time tracking, dashboards, PDF reports, file
attachments, real-time fan-out and an assisted task search.

Modules:
- models / schemas: persistence and API shapes
- crud: service operations and the task lifecycle rules
- reporting / report_pdf: aggregation and report rendering
- fanout: best-effort real-time event delivery
- search: assisted search with keyword fallback
"""

__version__ = "1.0.0"
