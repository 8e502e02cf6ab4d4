"""Format adapters: raw statement bytes → header-keyed records."""
