"""
Clinical URLs - Patients, Appointments, Sessions, Voice recordings.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AppointmentViewSet, PatientViewSet, SessionViewSet
from .views_recordings import VoiceRecordingViewSet

router = DefaultRouter()
router.register(r'patients', PatientViewSet, basename='patient')
router.register(r'appointments', AppointmentViewSet, basename='appointment')
router.register(r'sessions', SessionViewSet, basename='session')
router.register(r'voice-recordings', VoiceRecordingViewSet, basename='voice-recording')

urlpatterns = [
    path('', include(router.urls)),
]
