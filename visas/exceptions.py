"""
Error taxonomy of the application drafting workflow.

Field validation problems never show up here: the validator reports them as
a {field: message} map. Everything below is raised by the services and
translated to JSON by the views.
"""


class VisaWorkflowError(Exception):
    code = 'workflow_error'

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message

    def as_dict(self):
        return {'code': self.code, 'message': self.message}


# ========================================================
# 1. REMOTE API ADAPTER
# ========================================================

class RemoteAPIError(VisaWorkflowError):
    """The application database refused or failed a call."""
    code = 'remote_error'


class ApplicationNotFoundError(RemoteAPIError):
    code = 'application_not_found'

    def __init__(self, application_id):
        super().__init__(f"Application {application_id} was not found.")
        self.application_id = application_id


# ========================================================
# 2. UPLOADS
# ========================================================

class UploadError(VisaWorkflowError):
    code = 'upload_error'

    def __init__(self, kind, message=''):
        super().__init__(message)
        self.kind = kind

    def as_dict(self):
        data = super().as_dict()
        data['document_type'] = str(self.kind)
        return data


class InvalidFile(UploadError):
    code = 'invalid_file'


class TransferFailed(UploadError):
    code = 'transfer_failed'


class RegistrationFailed(UploadError):
    code = 'registration_failed'


# ========================================================
# 3. SESSION
# ========================================================

class SyncError(VisaWorkflowError):
    """A create or per-step push to the server failed. Recoverable."""
    code = 'sync_failed'

    def __init__(self, message='', section=''):
        super().__init__(message)
        self.section = section


class SessionIntegrityError(VisaWorkflowError):
    """
    The cached application no longer matches the server.
    Fatal: the draft is cleared and the applicant restarts at step 1.
    """
    code = 'session_integrity'


class DraftSubmittedError(VisaWorkflowError):
    code = 'draft_submitted'

    def __init__(self):
        super().__init__("This application has already been submitted.")


# ========================================================
# 4. SUBMISSION PRECONDITIONS
# ========================================================

class SubmissionPreconditionError(VisaWorkflowError):
    code = 'submission_precondition'


class ApplicationNotCreated(SubmissionPreconditionError):
    code = 'application_not_created'

    def __init__(self):
        super().__init__(
            "The application has not been created yet. Open the documents step first.")


class DeclarationIncomplete(SubmissionPreconditionError):
    code = 'declaration_incomplete'

    def __init__(self):
        super().__init__(
            "You must agree to the terms and consent to data processing.")


class MissingDocuments(SubmissionPreconditionError):
    code = 'missing_documents'

    def __init__(self, kinds):
        self.kinds = [str(k) for k in kinds]
        super().__init__(
            f"Missing required documents: {', '.join(self.kinds)}")

    def as_dict(self):
        data = super().as_dict()
        data['documents'] = self.kinds
        return data
