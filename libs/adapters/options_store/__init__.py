from .stores import JsonFileOptionsStore, MemoryOptionsStore, OptionsStoreError

__all__ = ["MemoryOptionsStore", "JsonFileOptionsStore", "OptionsStoreError"]
