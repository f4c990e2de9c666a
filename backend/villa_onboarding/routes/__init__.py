from villa_onboarding.routes.onboarding import router as onboarding_router
from villa_onboarding.routes.admin import router as admin_router

__all__ = ["onboarding_router", "admin_router"]
