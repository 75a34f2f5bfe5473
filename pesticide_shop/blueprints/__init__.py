"""
Blueprints for returns, exchanges, the daily inventory and the reports.
"""
from .daily_inventory import bp as daily_inventory_bp
from .exchanges import bp as exchanges_bp
from .reports import bp as reports_bp
from .returns import bp as returns_bp

__all__ = ['daily_inventory_bp', 'exchanges_bp', 'reports_bp', 'returns_bp']
