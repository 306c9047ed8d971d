from crm_admin.client.filters import Filter, coerce_value, parse_filters
from crm_admin.client.supabase_client import SupabaseClient

__all__ = ["Filter", "SupabaseClient", "coerce_value", "parse_filters"]
