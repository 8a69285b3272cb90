import hmac
import json
import time
from functools import wraps

from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.http import JsonResponse, StreamingHttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from extraction.ledger import InsufficientCredits
from extraction.models import MediaTask
from extraction.operations import (
    InvalidSubmission,
    MediaExpired,
    MediaUnavailable,
    credit_summary,
    get_download_link,
    get_owned_task,
    get_task_status,
    request_rewrite,
    submit_task,
    task_projection,
)
from extraction.pipeline import run_task
from extraction.service.plan_limits import QuotaExceeded
from extraction.utils import write_log


def api_login_required(view):
    """Like login_required, but answers 401 JSON instead of redirecting"""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'error': 'Authentication required'}, status=401)
        return view(request, *args, **kwargs)

    return wrapper


def _request_data(request):
    """Read parameters from a JSON body, falling back to form data"""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
    return request.POST.dict()


@csrf_exempt
@require_http_methods(['POST'])
@api_login_required
def submit_view(request):
    """
    Submit a URL for extraction.

    Params:
        url (required): YouTube or TikTok URL
        outputKind (required): captions|media_file
        targetLang (optional): language code to translate captions into

    Returns:
        JSON {taskId}
    """
    data = _request_data(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    url = data.get('url')
    output_kind = data.get('outputKind')
    if not url:
        return JsonResponse({'error': 'Missing required parameter: url'}, status=400)
    if not output_kind:
        return JsonResponse({'error': 'Missing required parameter: outputKind'}, status=400)

    try:
        task = submit_task(request.user, url, output_kind, target_lang=data.get('targetLang'))
    except InvalidSubmission as e:
        return JsonResponse({'error': str(e)}, status=400)
    except InsufficientCredits as e:
        return JsonResponse(
            {'error': str(e), 'required': e.required, 'available': e.available}, status=402
        )
    except QuotaExceeded as e:
        return JsonResponse({'error': str(e)}, status=429)

    return JsonResponse({'taskId': task.guid})


@require_http_methods(['GET'])
@api_login_required
def status_view(request):
    """Current state of a task: GET ?id=<taskId>"""
    guid = request.GET.get('id')
    if not guid:
        return JsonResponse({'error': 'Missing required parameter: id'}, status=400)

    try:
        data = get_task_status(request.user, guid)
    except MediaTask.DoesNotExist:
        return JsonResponse({'error': 'Task not found'}, status=404)
    except PermissionDenied:
        return JsonResponse({'error': 'No permission'}, status=403)
    return JsonResponse(data)


@require_http_methods(['GET'])
@api_login_required
def status_stream_view(request, guid):
    """
    SSE endpoint that streams status updates for a task.

    Sends an event whenever status or progress changes and closes once the
    task is terminal or resting in extracted.
    """
    try:
        get_owned_task(request.user, guid)
    except MediaTask.DoesNotExist:
        return JsonResponse({'error': 'Task not found'}, status=404)
    except PermissionDenied:
        return JsonResponse({'error': 'No permission'}, status=403)

    def event_stream():
        last_state = None

        while True:
            try:
                task = MediaTask.objects.get(guid=guid)
            except MediaTask.DoesNotExist:
                yield 'event: error\ndata: {"error": "Task not found"}\n\n'
                break

            state = (task.status, task.progress)
            if state != last_state:
                yield f'data: {json.dumps(task_projection(task))}\n\n'
                last_state = state

            done = task.is_terminal or (
                task.status == MediaTask.STATUS_EXTRACTED and not task.has_pending_work
            )
            if done:
                yield 'event: complete\ndata: {}\n\n'
                break

            time.sleep(1)

    response = StreamingHttpResponse(event_stream(), content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response


@csrf_exempt
@require_http_methods(['POST'])
@api_login_required
def rewrite_view(request):
    """
    Rewrite an extracted task's captions.

    Params:
        taskId (required)
        style (required): tiktok|youtube|redbook|emotional|script
        instruction (optional): free-text requirement, overrides the style
    """
    data = _request_data(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)
    if not data.get('taskId'):
        return JsonResponse({'error': 'Task ID is required'}, status=400)
    if not data.get('style'):
        return JsonResponse({'error': 'Style is required'}, status=400)

    try:
        task = request_rewrite(
            request.user, data['taskId'], data['style'], instruction=data.get('instruction')
        )
    except MediaTask.DoesNotExist:
        return JsonResponse({'error': 'Task not found'}, status=404)
    except PermissionDenied:
        return JsonResponse({'error': 'No permission'}, status=403)
    except InvalidSubmission as e:
        return JsonResponse({'error': str(e)}, status=400)

    return JsonResponse({'taskId': task.guid})


@require_http_methods(['GET'])
@api_login_required
def download_view(request, guid):
    """Download link for a media_file task: {downloadUrl, expiresAt}"""
    try:
        data = get_download_link(request.user, guid)
    except MediaTask.DoesNotExist:
        return JsonResponse({'error': 'Task not found'}, status=404)
    except PermissionDenied:
        return JsonResponse({'error': 'No permission'}, status=403)
    except MediaExpired as e:
        return JsonResponse({'error': str(e)}, status=410)
    except MediaUnavailable as e:
        return JsonResponse({'error': str(e)}, status=404)

    return JsonResponse(data)


@require_http_methods(['GET'])
@api_login_required
def credits_view(request):
    return JsonResponse(credit_summary(request.user))


@csrf_exempt
@require_http_methods(['POST'])
def process_internal_view(request):
    """
    Run a dispatched task inside this request.

    Authenticated by the shared secret header rather than a session; this is
    the target of the out-of-band trigger.
    """
    secret = settings.VIDSCRIBE_INTERNAL_SECRET
    provided = request.headers.get('X-Vidscribe-Secret', '')
    if not secret or not hmac.compare_digest(provided, secret):
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    data = _request_data(request)
    if data is None:
        return JsonResponse({'error': 'Invalid JSON body'}, status=400)

    missing = [key for key in ('taskId', 'url', 'outputKind', 'owner') if not data.get(key)]
    if missing:
        return JsonResponse(
            {'error': f'Missing required fields: {", ".join(missing)}'}, status=400
        )

    try:
        task = MediaTask.objects.get(guid=data['taskId'])
    except MediaTask.DoesNotExist:
        return JsonResponse({'error': 'Task not found'}, status=404)
    if task.source_url != data['url'] or str(task.owner_id) != str(data['owner']):
        return JsonResponse({'error': 'Payload does not match task'}, status=400)

    write_log(task.get_log_path(), 'Internal trigger received')
    status = run_task(task.guid)
    return JsonResponse({'taskId': task.guid, 'status': status})
