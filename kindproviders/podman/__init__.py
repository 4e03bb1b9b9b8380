"""Namespace for a podman provider; it holds no modules yet."""