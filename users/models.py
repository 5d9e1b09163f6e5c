# users/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.translation import gettext_lazy as _


class CustomUser(AbstractUser):
    """
    Restaurant user. Customers with an account are the subscribers that can
    book under their profile instead of leaving a guest contact; staff and
    managers run the floor and the table inventory.
    """

    class Role(models.TextChoices):
        CUSTOMER = 'customer', _('Customer')
        STAFF = 'staff', _('Staff')
        MANAGER = 'manager', _('Manager')
        ADMIN = 'admin', _('Admin')

    role = models.CharField(
        _('role'),
        max_length=20,
        choices=Role.choices,
        default=Role.CUSTOMER,
        db_index=True,
    )

    # Used for SMS notifications next to the account e-mail
    phone = models.CharField(_('phone number'), max_length=20, blank=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['username']
        indexes = [
            models.Index(fields=['is_active', 'role'], name='user_active_role_idx'),
        ]

    def __str__(self):
        return self.username

    def has_role(self, *roles):
        return self.role in roles

    @property
    def contacts(self):
        """
        Non-empty contact channels of the profile, e-mail first.
        """
        return [value for value in (self.email, self.phone) if value and value.strip()]
