from crm_admin.config.settings import Settings, get_settings, load_env, mask_secret

__all__ = ["Settings", "get_settings", "load_env", "mask_secret"]
