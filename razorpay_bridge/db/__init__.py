"""
Módulo de acceso a datos del bridge de Razorpay.

Separación de responsabilidades:

- ConnDB: Gestión exclusiva de la conexión a la base de datos local
- Repositories: Consultas por tabla sobre la sesión de la request
- RazorpayClient: Llamadas a la API REST de Razorpay
"""

from razorpay_bridge.db.connection import ConnDB, get_db_connection
from razorpay_bridge.db.razorpay_client import RazorpayClient, close_razorpay_client, get_razorpay_client
from razorpay_bridge.db.repositories import Repositories

__all__ = [
    "ConnDB",
    "get_db_connection",
    "RazorpayClient",
    "get_razorpay_client",
    "close_razorpay_client",
    "Repositories",
]
