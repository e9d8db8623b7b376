from __future__ import annotations

import json
from typing import Any

import jinja2

NAMESPACE_TEMPLATE = """\
apiVersion: v1
kind: Namespace
metadata:
  name: {{ namespace | quote }}
"""

SERVICE_ACCOUNT_TEMPLATE = """\
apiVersion: v1
kind: ServiceAccount
metadata:
  name: {{ service_account_name | quote }}
  namespace: {{ namespace | quote }}
"""

ROLE_TEMPLATE = """\
apiVersion: rbac.authorization.k8s.io/v1
kind: Role
metadata:
  name: {{ role_name | quote }}
  namespace: {{ namespace | quote }}
rules:
- apiGroups: [""]
  resources: ["pods"]
  verbs: ["get", "list"]
- apiGroups: [""]
  resources: ["pods/exec"]
  verbs: ["create", "get"]
"""

ROLE_BINDING_TEMPLATE = """\
apiVersion: rbac.authorization.k8s.io/v1
kind: RoleBinding
metadata:
  name: {{ role_binding_name | quote }}
  namespace: {{ namespace | quote }}
subjects:
- kind: ServiceAccount
  name: {{ service_account_name | quote }}
  namespace: {{ namespace | quote }}
roleRef:
  kind: Role
  name: {{ role_name | quote }}
  apiGroup: rbac.authorization.k8s.io
"""

EXEC_JOB_TEMPLATE = """\
apiVersion: batch/v1
kind: Job
metadata:
  name: {{ job_name | quote }}
  namespace: {{ namespace | quote }}
spec:
  backoffLimit: {{ backoff_limit | int }}
  template:
    spec:
      serviceAccountName: {{ service_account_name | quote }}
      containers:
      - name: {{ container_name | quote }}
        image: {{ image | quote }}
        command:
        - "kubectl"
        - "exec"
        - {{ target_pod | quote }}
        - "-c"
        - {{ target_container | quote }}
        - "--"
        {%- for token in command %}
        - {{ token | quote }}
        {%- endfor %}
      restartPolicy: Never
"""


def _quote(value: Any) -> str:
    # JSON strings are valid YAML double-quoted scalars
    return json.dumps("" if value is None else str(value))


def _build_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.DictLoader(
            {
                "namespace": NAMESPACE_TEMPLATE,
                "service_account": SERVICE_ACCOUNT_TEMPLATE,
                "role": ROLE_TEMPLATE,
                "role_binding": ROLE_BINDING_TEMPLATE,
                "exec_job": EXEC_JOB_TEMPLATE,
            }
        ),
        undefined=jinja2.StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters["quote"] = _quote
    return env


_ENV = _build_environment()


def render(template_name: str, **context: Any) -> str:
    """Render a named manifest template; missing variables raise."""

    return _ENV.get_template(template_name).render(**context)


__all__ = [
    "EXEC_JOB_TEMPLATE",
    "NAMESPACE_TEMPLATE",
    "ROLE_BINDING_TEMPLATE",
    "ROLE_TEMPLATE",
    "SERVICE_ACCOUNT_TEMPLATE",
    "render",
]
