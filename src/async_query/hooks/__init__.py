from async_query.hooks.core import (
	HOOK_CONTEXT,
	HOOK_REGISTRY,
	Hook,
	HookContext,
	HookIdentity,
	HookInit,
	HookMetadata,
	HookState,
	callsite_identity,
	create_hook,
)
from async_query.hooks.query import QueryHookState, use_lazy_query, use_query

__all__ = [
	"HOOK_CONTEXT",
	"HOOK_REGISTRY",
	"Hook",
	"HookContext",
	"HookIdentity",
	"HookInit",
	"HookMetadata",
	"HookState",
	"QueryHookState",
	"callsite_identity",
	"create_hook",
	"use_lazy_query",
	"use_query",
]
