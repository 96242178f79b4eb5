from rest_framework.response import Response
from rest_framework.views import APIView


class ApiHomeView(APIView):
    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response(
            {
                "message": "Welcome to the NTG service desk API",
                "endpoints": {
                    "admin": "/admin/",
                    "token_obtain": "/api/token/",
                    "token_refresh": "/api/token/refresh/",
                    "schema": "/api/schema/",
                    "swagger": "/api/schema/swagger-ui/",
                    "redoc": "/api/schema/redoc/",
                    "workflows": "/desk/workflows/",
                    "dashboard": "/desk/dashboard/stats/",
                    "health": "/desk/health/",
                },
            }
        )
