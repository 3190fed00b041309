from .ensemble import EnsembleClient, parse_post_info

__all__ = ["EnsembleClient", "parse_post_info"]
