from django.conf import settings
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet, ReadOnlyModelViewSet

from .models import Conversation
from .serializers import (
    ConsultationDetailSerializer,
    ConsultationFilterSerializer,
    ConsultationMessageSerializer,
    ConsultationSerializer,
    ConversationDetailSerializer,
    ConversationSerializer,
    SummaryUpdateSerializer,
)
from .services.consultation_service import (
    ConsultationFilters,
    ConsultationNotFound,
    ConsultationService,
)
from .services.overlay import OverlayConflictError, OverlayStoreError


class ConsultationPagination(PageNumberPagination):
    page_size = getattr(settings, "CONSULTATIONS_PAGE_SIZE", 10)
    page_size_query_param = "pageSize"
    max_page_size = getattr(settings, "CONSULTATIONS_MAX_PAGE_SIZE", 100)


def _not_found(exc: ConsultationNotFound) -> Response:
    return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)


def _overlay_failure(exc: OverlayStoreError) -> Response:
    if isinstance(exc, OverlayConflictError):
        return Response({"error": str(exc)}, status=status.HTTP_409_CONFLICT)
    return Response({"error": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


class ConsultationViewSet(GenericViewSet):
    """
    Chatbot consultations derived from conversation transcripts.

    ``pk`` is the consultation id, ``<conversation uuid>:<start message id>``.
    """

    pagination_class = ConsultationPagination
    serializer_class = ConsultationSerializer
    lookup_value_regex = "[^/]+"

    def get_service(self) -> ConsultationService:
        return ConsultationService()

    def list(self, request):
        filter_serializer = ConsultationFilterSerializer(data=request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        params = filter_serializer.validated_data

        filters = ConsultationFilters(
            estado=params.get("estado") or None,
            tipo_caso=params.get("tipoCaso") or None,
            canal=params.get("canal") or None,
            search=params.get("search") or None,
            fecha_inicio=params.get("fechaInicio"),
            fecha_fin=params.get("fechaFin"),
            conversation=params.get("conversation") or None,
        )
        try:
            consultations = self.get_service().list_consultations(filters)
        except OverlayStoreError as exc:
            return _overlay_failure(exc)

        page = self.paginate_queryset(consultations)
        if page is not None:
            return self.get_paginated_response(ConsultationSerializer(page, many=True).data)
        return Response(ConsultationSerializer(consultations, many=True).data)

    def retrieve(self, request, pk=None):
        try:
            consultation = self.get_service().get_consultation(pk)
        except ConsultationNotFound as exc:
            return _not_found(exc)
        except OverlayStoreError as exc:
            return _overlay_failure(exc)
        return Response(ConsultationDetailSerializer(consultation).data)

    def destroy(self, request, pk=None):
        """Soft-delete: the transcript is untouched, the consultation is hidden."""
        try:
            self.get_service().soft_delete(pk)
        except ConsultationNotFound as exc:
            return _not_found(exc)
        except OverlayStoreError as exc:
            return _overlay_failure(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get"], url_path="messages")
    def messages(self, request, pk=None):
        """Consultation transcript with the leading bot boilerplate removed."""
        try:
            messages = self.get_service().get_messages(pk)
        except ConsultationNotFound as exc:
            return _not_found(exc)
        except OverlayStoreError as exc:
            return _overlay_failure(exc)
        return Response(ConsultationMessageSerializer(messages, many=True).data)

    @action(detail=True, methods=["put"], url_path="summary")
    def summary(self, request, pk=None):
        """Override the synthesized summary with a staff-written one."""
        serializer = SummaryUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            consultation = self.get_service().set_summary(pk, serializer.validated_data["resumen"])
        except ConsultationNotFound as exc:
            return _not_found(exc)
        except OverlayStoreError as exc:
            return _overlay_failure(exc)
        return Response(ConsultationDetailSerializer(consultation).data)

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        try:
            return Response(self.get_service().stats())
        except OverlayStoreError as exc:
            return _overlay_failure(exc)


class ConversationViewSet(ReadOnlyModelViewSet):
    queryset = Conversation.objects.select_related("contact").prefetch_related("messages").all()
    pagination_class = ConsultationPagination

    def get_serializer_class(self):
        if self.action == "retrieve":
            return ConversationDetailSerializer
        return ConversationSerializer

    @action(detail=True, methods=["get"], url_path="consultations")
    def consultations(self, request, pk=None):
        """List the live consultations segmented out of this conversation."""
        conversation = self.get_object()
        try:
            consultations = ConsultationService().list_consultations(
                ConsultationFilters(conversation=str(conversation.pk))
            )
        except OverlayStoreError as exc:
            return _overlay_failure(exc)
        return Response(ConsultationSerializer(consultations, many=True).data)
