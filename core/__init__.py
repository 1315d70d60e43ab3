"""Core module - configuration, field mapping, sync contract and observability.

This module holds everything the integration modules share: the push/pull
contract, the module registry, translation batching and the value
conversions between local records and Odoo.

Odoo wire access belongs in /connectors/; per-plugin configuration in /modules/.
"""

__version__ = "1.0.0"
