import logging

from django.contrib.auth import get_user_model
from django.db.models import Count, Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sitedesk.core.permissions import HasPublicApiKey, IsAdminRole, is_admin_user
from .filters import WebsiteFilter, ManagementRecordFilter
from .models import Website, ManagementRecord
from .serializers import (
    WebsiteSerializer, WebsiteUpdateSerializer, WebsiteDetailSerializer,
    WebsiteStatusSerializer, ManagementRecordSerializer,
)

User = get_user_model()

logger = logging.getLogger(__name__)


def visible_websites(user):
    """Admins see every submission, users only their own"""
    queryset = Website.objects.select_related('user')
    if not is_admin_user(user):
        queryset = queryset.filter(user=user)
    return queryset


def get_visible_website(request, pk):
    website = get_object_or_404(Website.objects.select_related('user'), pk=pk)
    if not is_admin_user(request.user) and website.user_id != request.user.id:
        return None
    return website


def permission_denied():
    return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)


# Website views
@api_view(['GET', 'POST'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def website_list_create(request):
    """List visible submissions or submit a new one"""
    if request.method == 'GET':
        filterset = WebsiteFilter(request.query_params, queryset=visible_websites(request.user))
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer = WebsiteSerializer(filterset.qs.order_by('-created_at'), many=True)
        return Response(serializer.data)
    else:
        serializer = WebsiteSerializer(data=request.data)
        if serializer.is_valid():
            website = serializer.save(
                user=request.user,
                user_email=request.user.email,
                status=Website.STATUS_PENDING,
            )
            logger.info(f"{request.user.email} submitted {website.type} {website.id} for approval")
            return Response(WebsiteDetailSerializer(website).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def website_detail(request, pk):
    """Retrieve, edit or delete a submission (owner or admin)"""
    website = get_visible_website(request, pk)
    if website is None:
        return permission_denied()

    if request.method == 'GET':
        website = Website.objects.prefetch_related('management_records').get(pk=website.pk)
        return Response(WebsiteDetailSerializer(website).data)
    elif request.method == 'PATCH':
        serializer = WebsiteUpdateSerializer(website, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(WebsiteDetailSerializer(website).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        logger.info(f"{request.user.email} deleted submission {website.id}")
        website.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([HasPublicApiKey, IsAdminRole])
def website_status(request, pk):
    """Approve or reject a pending submission"""
    website = get_object_or_404(Website, pk=pk)
    serializer = WebsiteStatusSerializer(data=request.data, context={'website': website})
    if serializer.is_valid():
        website.apply_status(
            serializer.validated_data['status'],
            serializer.validated_data.get('rejection_reason'),
        )
        logger.info(f"Admin {request.user.email} set submission {website.id} to {website.status}")
        return Response(WebsiteSerializer(website).data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def website_summary(request):
    """Counts backing the dashboards"""
    counts = visible_websites(request.user).aggregate(
        total=Count('id'),
        pending=Count('id', filter=Q(status=Website.STATUS_PENDING)),
        approved=Count('id', filter=Q(status=Website.STATUS_APPROVED)),
        rejected=Count('id', filter=Q(status=Website.STATUS_REJECTED)),
    )
    if is_admin_user(request.user):
        counts['users'] = User.objects.filter(role=User.ROLE_USER).count()
    return Response(counts)


# Management record views
@api_view(['GET'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def record_list(request):
    """All management records of the visible submissions"""
    queryset = ManagementRecord.objects.filter(website__in=visible_websites(request.user))
    filterset = ManagementRecordFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer = ManagementRecordSerializer(filterset.qs.order_by('created_at'), many=True)
    return Response(serializer.data)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([HasPublicApiKey, IsAuthenticated])
def website_records(request, pk):
    """List, add, or clear the management records of one submission"""
    website = get_visible_website(request, pk)
    if website is None:
        return permission_denied()

    if request.method == 'GET':
        serializer = ManagementRecordSerializer(website.management_records.all(), many=True)
        return Response(serializer.data)

    # Check Admin permission
    if not is_admin_user(request.user):
        return permission_denied()

    if request.method == 'POST':
        if website.status != Website.STATUS_APPROVED:
            return Response(
                {'error': f'Management records can only be added to approved submissions (status is {website.status})'},
                status=status.HTTP_400_BAD_REQUEST
            )
        serializer = ManagementRecordSerializer(data=request.data)
        if serializer.is_valid():
            serializer.save(website=website)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE clears every record; clearing an empty list is fine
        deleted, _ = website.management_records.all().delete()
        logger.info(f"Admin {request.user.email} cleared {deleted} records of submission {website.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PATCH', 'DELETE'])
@permission_classes([HasPublicApiKey, IsAdminRole])
def website_record_detail(request, pk, record_pk):
    """Edit or delete one management record"""
    record = get_object_or_404(ManagementRecord, pk=record_pk, website_id=pk)

    if request.method == 'PATCH':
        serializer = ManagementRecordSerializer(record, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        record.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
