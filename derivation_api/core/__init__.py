"""Core module - Pipeline de derivación de lecturas.

Estructura:
- domain/       → Modelos, errores y contratos de sinks
- calibration/  → Store de calibraciones y recarga en caliente
- derivation/   → Motor puro cruda → derivada
- validation/   → Frontera de validación de payloads
- pipeline/     → Coordinador, colas por dispositivo y despacho
- sinks/        → Persistencia (SQLAlchemy), live (Redis), memoria
- transport/    → Recepción MQTT
- monitoring/   → Métricas y health
"""
