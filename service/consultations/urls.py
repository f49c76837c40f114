from rest_framework.routers import DefaultRouter

from .views import ConsultationViewSet, ConversationViewSet

router = DefaultRouter()
router.register(r"consultations", ConsultationViewSet, basename="consultation")
router.register(r"conversations", ConversationViewSet, basename="conversation")

urlpatterns = router.urls
