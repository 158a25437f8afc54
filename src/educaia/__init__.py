"""EducaIA - conversational assistant service for SmartGesTI Ensino."""

__version__ = "1.0.0"
