"""HTTP surface: dependencies, middleware and routers."""
