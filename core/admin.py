from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, Project, Proposal, ProjectInvite, Notification


class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'role', 'plan', 'boosted_until', 'is_active')
    list_filter = ('role', 'plan', 'is_active')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Marketplace', {'fields': ('role', 'plan', 'avatar', 'bio', 'boosted_until', 'gateway_customer_id')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Marketplace', {'fields': ('email', 'role', 'plan')}),
    )
    search_fields = ('username', 'email', 'first_name', 'last_name')
    ordering = ('username',)

admin.site.register(User, UserAdmin)


class ProjectAdmin(admin.ModelAdmin):
    list_display = ['title', 'id', 'client', 'budget', 'automation_type', 'created_at']
    search_fields = ['title', 'client__username']

admin.site.register(Project, ProjectAdmin)


class ProposalAdmin(admin.ModelAdmin):
    list_display = ['id', 'freelancer', 'project', 'price', 'created_at']
    search_fields = ['freelancer__username', 'project__title']

admin.site.register(Proposal, ProposalAdmin)
admin.site.register(ProjectInvite)
admin.site.register(Notification)
