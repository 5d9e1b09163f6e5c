# urls.py
from rest_framework.routers import DefaultRouter
from .views import OpeningHoursViewSet, TableViewSet

router = DefaultRouter()
router.register('tables', TableViewSet, basename='table')
router.register('opening-hours', OpeningHoursViewSet, basename='opening-hours')

urlpatterns = router.urls
