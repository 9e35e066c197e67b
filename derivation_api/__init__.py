"""Servicio de derivación de lecturas de sensores (cruda → física)."""
